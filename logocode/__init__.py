"""LogoCode: explore a codebase as a graph and review agent-proposed edits."""

__version__ = "0.3.0"
