"""
Services for the MeshCore relay

MeshCore packet decoding and the MQTT to Discord relay.
"""
