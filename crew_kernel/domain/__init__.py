"""Pure domain core: state machines, escrow arithmetic, rating math, value objects."""
