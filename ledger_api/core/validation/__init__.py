from .entry_validator import EntryValidator, coerce_components, coerce_number, coerce_raw_values

__all__ = ["EntryValidator", "coerce_components", "coerce_number", "coerce_raw_values"]
