"""Background work: job dispatch, per-account locks and job entry points."""
