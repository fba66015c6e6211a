"""Pricing, wizard and file-handling modules for Print Emporium."""
