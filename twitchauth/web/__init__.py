"""Local web surface used by the loopback authorization launcher."""
