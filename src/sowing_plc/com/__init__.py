"""
Communication Module (COM)

Core
    Exceptions, shared enums and the frame transport interface

External Layer
    Asyncio TCP frame transport

Industrial Layer
    Modbus-TCP codec, transaction registry, connection manager and client
"""
