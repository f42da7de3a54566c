"""Shape classifier training (run ``python -m touchsurface.training.train_classifier``)."""
