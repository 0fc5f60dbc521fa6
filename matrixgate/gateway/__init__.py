"""Gateway wiring."""

from matrixgate.gateway.gate import PairingGate

__all__ = ["PairingGate"]
