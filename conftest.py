import matplotlib

# Tests never open a window; render onto the Agg backend.
matplotlib.use("Agg")
