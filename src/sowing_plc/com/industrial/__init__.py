"""
Industrial Communication Protocols

Modbus-TCP master for the sowing-wall PLC.
"""
