"""
External Communication Layer

Byte-stream transports the protocol engine runs on.
"""
