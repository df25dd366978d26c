"""QDash API routers."""
