"""Pure domain layer: values, DTOs, invariant enforcement. No I/O."""
