if __name__ == "__main__":
    import numpy as np
    from sklearn.datasets import load_iris

    from gcforest_engine import datasets
    from gcforest_engine.gc_forest import GCForestClassifier

    # -----------------------------------------------------
    # Example: base gcForest that only uses cascade forest
    # -----------------------------------------------------
    # This example fits a gcForest model on the IRIS data set. The cascade forest consists of 2 random and 2 completely
    # random forests in each layer; layers are scored on a held-out 30% of the data.

    data_X, data_y = load_iris(return_X_y=True)
    train_idx, test_idx = datasets.holdout_split(data_X.shape[0], data_y, test_size=0.3, random_state=0)
    train_X, train_y, test_X, test_y = data_X[train_idx], data_y[train_idx], data_X[test_idx], data_y[test_idx]

    gcf = GCForestClassifier(rf_num=2,
                             crf_num=2,
                             cascade_forest_tree_num=200,
                             early_stopping_rounds=1,
                             random_state=0)

    preds = gcf.fit(train_X, train_y, val_feats=test_X, val_labels=test_y).predict(test_X)
    accuracy = np.sum(preds == test_y) / test_y.shape[0]
    print("[Accuracy: %.5f, layers: %d]" % (accuracy, gcf.n_layers_))
