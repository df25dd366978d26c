"""Reporting and aggregation for QDash views."""
