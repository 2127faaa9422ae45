"""EMBuilder - Event-Model driven development toolkit for Claude Code."""

__version__ = "0.1.7"
