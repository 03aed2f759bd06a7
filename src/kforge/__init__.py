"""kforge - kernel image build orchestrator."""

__version__ = "0.1.0"
