"""
VPN Orchestrator - client-side connection orchestration for a VPN backend
"""

__version__ = "1.0.0"
