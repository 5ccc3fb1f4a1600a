"""Configuración y conexión a base de datos compartidas."""
