"""core/ -- Kernel: configuration, result kinds, engine helpers. No reverse dependencies."""
