if __name__ == "__main__":
    import numpy as np
    from sklearn.datasets import load_digits

    from gcforest_engine import datasets
    from gcforest_engine.gc_forest import GCForestClassifier

    # ---------------------------------------------------------------------------
    # Example: base gcForest that uses multi-grained scanning and cascade forest
    # ---------------------------------------------------------------------------
    # This example fits a gcForest model on the 8x8 DIGITS data set. It uses 1 random forest and 1 completely random
    # forest for each of the 2 grain sizes used (3x3 and 5x5) in multi-grained scanning part of gcForest. The cascade
    # forest consists of 2 random and 2 completely random forests in each layer. 20% of training data is held out to
    # decide when to stop growing the cascade. The fitted model is saved to disk and loaded back.

    data_X, data_y = load_digits(return_X_y=True)
    train_idx, test_idx = datasets.holdout_split(data_X.shape[0], data_y, test_size=0.3, random_state=0)
    train_X, train_y, test_X, test_y = data_X[train_idx], data_y[train_idx], data_X[test_idx], data_y[test_idx]

    gcf = GCForestClassifier(data_style="image",
                             data_size=[8, 8],  # needs to be specified because image vectors are unrolled
                             multi_scan_window=[3, 5],
                             scan_forest_tree_num=50,
                             cascade_forest_tree_num=100,
                             validation_fraction=0.2,
                             n_jobs=-1,
                             random_state=0)

    gcf.fit(train_X, train_y)
    gcf.save("digits_gcforest.joblib")

    from gcforest_engine.model import GCForestModel
    model = GCForestModel.load("digits_gcforest.joblib")
    preds = model.predict(test_X)
    accuracy = np.sum(preds == test_y) / test_y.shape[0]
    print("[Accuracy: %.5f, layers: %d]" % (accuracy, model.n_layers))
