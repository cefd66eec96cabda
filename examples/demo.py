import asyncio
import logging
import os
from aioconsole import ainput
from home_connect_stream import HomeConnect, AuthManager, ApplianceEvent, Events

logging.basicConfig(level=logging.DEBUG)

REFRESH_TOKEN_FILE = 'examples/refresh_token.txt'

CLIENT_ID = os.getenv('CLIENT_ID')
CLIENT_SECRET = os.getenv('CLIENT_SECRET')

async def event_handler(event:ApplianceEvent) -> None:
    print(f"{event.haId} -> {event.key}: {event.displayvalue} {event.unit or ''}" )

async def connectivity_handler(haId:str, state:Events) -> None:
    print(f"{haId} is now {state.value}")

async def resync_handler() -> None:
    print("The stream was down for a while, reload the appliance state")


async def main():

    refresh_token = None
    am = AuthManager(CLIENT_ID, CLIENT_SECRET, simulate=True)
    if os.path.exists(REFRESH_TOKEN_FILE):
        with open(REFRESH_TOKEN_FILE, 'r') as f:
            refresh_token = f.readline()
            am.refresh_token = refresh_token
    else:
        am.login()
        refresh_token = am.refresh_token
        with open(REFRESH_TOKEN_FILE, 'w+') as f:
            f.write(refresh_token)

    hc = await HomeConnect.async_create(am, auto_connect=False)
    for appliance in await hc.async_get_home_appliances():
        hc.register_subscriber(appliance['haId'], event_handler)
    hc.register_callback(connectivity_handler, [Events.CONNECTED, Events.DISCONNECTED])
    hc.register_callback(resync_handler, Events.RESYNC_NEEDED)
    await hc.async_connect()

    exit = False
    while not exit:
        line = await ainput()
        if line == 'exit': exit=True
        elif line == 'status':
            print(hc.get_status().to_json(indent=2))
        elif line == 'connect':
            await hc.async_connect()
        elif line == 'disconnect':
            await hc.async_disconnect()
        elif line == 'clear':
            hc.clear_rate_limit()

    await hc.async_close()
    await am.close()


asyncio.run(main())
