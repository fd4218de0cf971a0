import argparse
import asyncio
import json

import websockets

from rxtunnel import Gateway, GatewayCredentials, Tunnel, TunnelTarget
from rxtunnel.telemetry import ConsoleLogRecordExporter, configure_telemetry

# this example runs a toy gateway that echoes payload back, and a tunnel that talks through it.


# run this on the gateway side
def gateway(port: int):
    async def handler(connection):
        await connection.send(json.dumps({"_": "hello", "version": 1}))
        await connection.recv()
        await connection.send(json.dumps({"_": "ready"}))
        connect = json.loads(await connection.recv())
        print(f"Tunnel requested to {connect['host']}:{connect['port']}")
        await connection.send(json.dumps({"_": "connected"}))
        async for message in connection:
            await connection.send(message)

    async def serve():
        async with websockets.serve(handler, "0.0.0.0", port):
            await asyncio.get_running_loop().create_future()

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")


# run this on the client side
def client(port: int):
    _, logger_provider = configure_telemetry(
        service_name="tunnel-example",
        log_exporter=ConsoleLogRecordExporter(),
        batch_logs=False,
    )

    async def resolver():
        return Gateway(url=f"ws://localhost:{port}")

    async def run():
        tunnel = Tunnel(
            resolver,
            GatewayCredentials(auth_token="example"),
            logger_provider=logger_provider,
        )
        tunnel.data.subscribe(print, on_error=print)
        await tunnel.open(TunnelTarget("localhost", 22))

        i = 0
        while True:
            await asyncio.sleep(0.5)
            tunnel.write(f"Ping {i}".encode())
            i += 1

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nKeyboard Interrupt.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("role", choices=["gateway", "client"])
    parser.add_argument("--port", type=int, default=8888)
    args = parser.parse_args()
    if args.role == "gateway":
        gateway(args.port)
    else:
        client(args.port)
