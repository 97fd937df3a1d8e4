"""Bingo domain services: number draws, registry, fan-out, timers, commands.

Everything here is transport-agnostic. Socket.IO handlers and HTTP routes
import these services and hand them the sockets, keeping wire concerns
separate from the game itself.
"""
