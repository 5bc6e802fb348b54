"""
Hearth CLI - Command-line interface for bridge control.

Sends control-plane commands over MQTT without writing JSON by hand.

Usage:
    hearth-cli list-nodes
    hearth-cli pairing lamp_1
    hearth-cli set-status lamp_1 --on --level 120
    hearth-cli coordinator-state srv
"""

__version__ = "1.0.0"
