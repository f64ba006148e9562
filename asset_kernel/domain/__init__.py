"""Pure kernel domain objects: clocks and shared DTOs."""
