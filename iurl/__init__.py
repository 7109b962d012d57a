"""iurl: URL safety verdicts from heuristic detectors and an optional AI risk estimate."""
