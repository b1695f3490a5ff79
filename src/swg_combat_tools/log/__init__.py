"""Combat log parsing: event types, line grammars, name canonicalization and elemental splits."""
