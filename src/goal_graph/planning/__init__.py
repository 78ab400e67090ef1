"""Task plan parsing and two-phase persistence of task graphs."""
