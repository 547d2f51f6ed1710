"""HTTP surface for the allowance engine."""
