"""Repository modules (module-level async functions over ``get_session``)."""
