from dataclasses import dataclass
from typing import Optional, Dict

@dataclass
class Accuracy:
    symbol: str  # e.g. "10ms", "1s", "1m"
    name: str    # e.g. "10 milliseconds", "1 second"
    ms: int      # step between chart ticks in milliseconds
    max_range_ms: int  # widest time range still charted with this step
    down: Optional['Accuracy'] = None
    up: Optional['Accuracy'] = None

    def __repr__(self):
        return f"<Accuracy {self.symbol} ({self.name})>"

# Create accuracy instances, every preset keeps a chart at up to ~3000 ticks
ten_ms = Accuracy('10ms', '10 milliseconds', 10, 30_000)
hundred_ms = Accuracy('100ms', '100 milliseconds', 100, 300_000, down=ten_ms)
ten_ms.up = hundred_ms

one_s = Accuracy('1s', '1 second', 1_000, 3_000_000, down=hundred_ms)
hundred_ms.up = one_s

ten_s = Accuracy('10s', '10 seconds', 10_000, 30_000_000, down=one_s)
one_s.up = ten_s

one_min = Accuracy('1m', '1 minute', 60_000, 180_000_000, down=ten_s)
ten_s.up = one_min

# Create a lookup dictionary for easy access by symbol
ACCURACIES: Dict[str, Accuracy] = {
    a.symbol: a for a in [
        ten_ms, hundred_ms, one_s, ten_s, one_min
    ]
}

# Default accuracy
DEFAULT_ACCURACY = hundred_ms

def pick_accuracy(visible_range_ms: int) -> Accuracy:
    """
    Determine the appropriate accuracy based on the visible time range.

    Args:
        visible_range_ms: The visible time range in milliseconds

    Returns:
        Accuracy: The finest preset whose range covers the visible one,
        the coarsest preset for anything wider
    """
    accuracy = ten_ms
    while accuracy.up is not None and visible_range_ms > accuracy.max_range_ms:
        accuracy = accuracy.up
    return accuracy

def resolve_accuracy(value) -> Optional[Accuracy]:
    """Look an accuracy up by its symbol or by its step in milliseconds."""
    if isinstance(value, Accuracy):
        return value
    if isinstance(value, str):
        return ACCURACIES.get(value)
    if isinstance(value, int) and not isinstance(value, bool):
        for accuracy in ACCURACIES.values():
            if accuracy.ms == value:
                return accuracy
    return None
