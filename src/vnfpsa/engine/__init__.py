"""Search engine: evaluation, dominance, neighbourhood and the annealing loop."""
