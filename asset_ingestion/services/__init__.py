"""Import job services (lifecycle, background runner, phase audit)."""
