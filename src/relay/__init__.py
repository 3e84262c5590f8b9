# Watch-party relay package
#
# Provides:
#  - FastAPI-based WebSocket relay that rebroadcasts each message to every
#    other connected peer
#  - Shallow validation of video sync commands (play/pause/seek/changeVideo)
#  - A small websockets client that rebuilds playback state from the stream
#
# See src/relay/server.py for the app entry point.
