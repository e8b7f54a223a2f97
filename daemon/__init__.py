"""RunAlert daemon modules - split resolution, rules, run watching."""
