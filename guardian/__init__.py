"""Edge Guardian: screenshot manipulation analysis backend."""
