"""
Bridge daemon package for the vendor-to-VPP integration.

Enrols battery/hybrid inverters into the vendor's control group, translates
platform control commands into vendor dispatch calls, and republishes
normalized device telemetry on the platform's message queue.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""
