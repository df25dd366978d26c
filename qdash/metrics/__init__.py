"""PPM metrics (customer, supplier, outgoing)."""
