"""polymarket-veto - policy-guarded MCP gateway for the Polymarket CLI."""

__version__ = "0.1.0"
__logo__ = "🛡️"
