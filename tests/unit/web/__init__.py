"""Route tests for the QDash web API.

Routes run against the real app with ``get_store`` and ``get_app_config``
overridden; collaborators are mocked with ``unittest.mock``.
"""
