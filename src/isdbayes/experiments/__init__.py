"""Named recovery scenarios and paper-run defaults."""
