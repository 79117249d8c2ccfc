import unittest
from unittest import mock
import numpy as np

from gcforest_engine.cascade_forest import CascadeForest, CascadeLayer, EarlyStopping, EndingLayerAverage, GrowthState
from gcforest_engine.config import GCForestConfig
from gcforest_engine.exceptions import ConfigurationError, ShapeError, TrainingError
from gcforest_engine.forest_unit import ForestKind


def _synthetic_fit(accuracies, seen_widths=None, fail_at=None):
    """ Replacement for CascadeLayer.fit that does not train anything and reports given accuracies. """
    acc_iter = iter(accuracies)

    def fit(layer, feats, labels, random_state=None):
        if fail_at is not None and layer.layer_idx == fail_at:
            raise TrainingError("Degenerate fold...")
        if seen_widths is not None:
            seen_widths.append(feats.shape[1])

        layer.n_features_ = feats.shape[1]
        return layer, np.full((feats.shape[0], layer.n_output_features), 1.0 / layer.n_classes), next(acc_iter)

    return fit


class TestCascadeForest(unittest.TestCase):
    def setUp(self):
        rng = np.random.RandomState(0)
        self.labels = np.array([0, 1, 2] * 20)
        self.feats = rng.random_sample((60, 6))
        self.feats[:, 0] += self.labels

    def test_ending_layer_shape(self):
        """
        - tests averaging for examples where a single vector consists of probabilities (in this case, these are not
        really probabilities) from 8 random forests for 3 classes (i.e. each vector is of length 8 * 3)
        """
        end_layer = EndingLayerAverage(classes_=np.array(["ClassA", "ClassB", "ClassC"]))
        test_feats = np.random.sample((10, 24))

        proba_preds = end_layer.predict_proba(test_feats)

        self.assertEqual(proba_preds.shape[0], 10)
        self.assertEqual(proba_preds.shape[1], 3)

    def test_average_values(self):
        """
        - tests if probabilities for same classes (for each example) are properly averaged
        """
        end_layer1 = EndingLayerAverage(classes_=np.array(["ClassA", "ClassB", "ClassC", "ClassD"]))
        end_layer2 = EndingLayerAverage(classes_=np.array(["ClassA", "ClassB"]))

        feats1 = np.array([[0.15, 0.2, 0.1, 0.55],
                          [1, 0, 0, 0],
                          [0.57, 0.23, 0.07, 0.13],
                          [0.01, 0.1, 0.8, 0.09],
                          [0.3, 0.3, 0.3, 0.1]])
        # each row: [p1(classA), p1(classB), p2(ClassA), p2(classB)]
        feats2 = np.array([[1, 0, 0.7, 0.3],
                           [0.01, 0.99, 0.22, 0.78],
                           [0.95, 0.05, 0.13, 0.87]])

        proba_preds1 = end_layer1.predict_proba(feats1)
        proba_preds2 = end_layer2.predict_proba(feats2)

        np.testing.assert_array_almost_equal(proba_preds1, feats1)
        np.testing.assert_array_almost_equal(proba_preds2, np.array([[0.85, 0.15],
                                                                    [0.115, 0.885],
                                                                    [0.54, 0.46]]))
        np.testing.assert_array_equal(end_layer2.predict(feats2), ["ClassA", "ClassB", "ClassA"])

    def test_layer_output_width(self):
        """
        - tests that augmented output of a layer has (number of forests * number of classes) columns
        """
        for n_rf, n_crf in [(1, 0), (0, 1), (2, 1)]:
            layer = CascadeLayer(n_rf=n_rf, n_crf=n_crf, n_estimators=5, n_classes=3, verbose=0)
            fitted, augmented, oof_acc = layer.fit(self.feats, self.labels, random_state=0)

            self.assertIs(fitted, layer)
            self.assertTupleEqual(augmented.shape, (60, (n_rf + n_crf) * 3))
            self.assertTupleEqual(layer.transform(self.feats).shape, (60, (n_rf + n_crf) * 3))
            self.assertTrue(0.0 <= oof_acc <= 1.0)
            np.testing.assert_allclose(layer.predict_proba(self.feats).sum(axis=1), 1.0, atol=1e-6)

    def test_layer_unit_order(self):
        layer = CascadeLayer(n_rf=2, n_crf=1, n_estimators=5, n_classes=3, verbose=0)
        layer.fit(self.feats, self.labels, random_state=0)

        self.assertListEqual([unit.kind for unit in layer.units], [ForestKind.RF, ForestKind.RF, ForestKind.CRF])

    def test_layer_errors(self):
        with self.assertRaises(ConfigurationError):
            CascadeLayer(n_rf=0, n_crf=0)

        layer = CascadeLayer(n_rf=1, n_crf=1, n_estimators=5, n_classes=3, verbose=0)
        layer.fit(self.feats, self.labels, random_state=0)
        with self.assertRaises(ShapeError):
            layer.transform(self.feats[:, :5])

    def test_early_stopping_sequence(self):
        """
        - tests that accuracies [0.70, 0.75, 0.74, 0.73, 0.73] with 2 tolerated rounds stop after 5th layer and keep 2
        """
        stopping = EarlyStopping(rounds=2)
        decisions = [stopping.update(acc) for acc in [0.70, 0.75, 0.74, 0.73, 0.73]]

        self.assertListEqual(decisions, [False, False, False, False, True])
        self.assertEqual(stopping.best_n_layers, 2)
        self.assertAlmostEqual(stopping.best_score, 0.75)

    def test_early_stopping_prefers_shallow_ties(self):
        stopping = EarlyStopping(rounds=3)
        for acc in [0.6, 0.8, 0.8, 0.7]:
            stopping.update(acc)

        self.assertEqual(stopping.best_n_layers, 2)
        self.assertEqual(stopping.n_without_improvement, 2)

    def test_growth_stops_early(self):
        config = GCForestConfig(max_iteration=10, early_stopping_rounds=2, verbose=0)
        cascade = CascadeForest(config, n_classes=3, random_state=0)
        accuracies = [0.70, 0.75, 0.74, 0.73, 0.73, 0.9]

        with mock.patch.object(CascadeLayer, "fit", autospec=True, side_effect=_synthetic_fit(accuracies)):
            cascade.fit(self.feats, self.labels)

        self.assertIs(cascade.state, GrowthState.STOPPED_EARLY)
        self.assertEqual(len(cascade.layers), 5)
        self.assertEqual(cascade.best_n_layers, 2)
        self.assertEqual(len(cascade.retained_layers), 2)
        # retained prefix ends on a layer that is at least as good as any discarded one
        self.assertGreaterEqual(cascade.accuracies[1], max(cascade.accuracies[2:]))

    def test_growth_reaches_max_iteration(self):
        config = GCForestConfig(max_iteration=3, early_stopping_rounds=5, verbose=0)

        cascade = CascadeForest(config, n_classes=3, random_state=0)
        with mock.patch.object(CascadeLayer, "fit", autospec=True, side_effect=_synthetic_fit([0.5, 0.6, 0.7])):
            cascade.fit(self.feats, self.labels)
        self.assertIs(cascade.state, GrowthState.MAX_ITERATION_REACHED)
        self.assertEqual(cascade.best_n_layers, 3)

        # even without early stop, only the best prefix is retained
        cascade = CascadeForest(config, n_classes=3, random_state=0)
        with mock.patch.object(CascadeLayer, "fit", autospec=True, side_effect=_synthetic_fit([0.7, 0.8, 0.75])):
            cascade.fit(self.feats, self.labels)
        self.assertIs(cascade.state, GrowthState.MAX_ITERATION_REACHED)
        self.assertEqual(len(cascade.layers), 3)
        self.assertEqual(len(cascade.retained_layers), 2)

    def test_growth_converges(self):
        config = GCForestConfig(max_iteration=10, verbose=0)
        cascade = CascadeForest(config, n_classes=3, random_state=0)

        with mock.patch.object(CascadeLayer, "fit", autospec=True, side_effect=_synthetic_fit([0.9, 1.0, 1.0])):
            cascade.fit(self.feats, self.labels)

        self.assertIs(cascade.state, GrowthState.CONVERGED)
        self.assertEqual(len(cascade.layers), 2)
        self.assertEqual(cascade.best_n_layers, 2)

    def test_layer_input_width(self):
        """
        - tests that every layer after the first gets original features and output of previous layer only
        """
        config = GCForestConfig(rf_num=1, crf_num=2, max_iteration=4, early_stopping_rounds=10, verbose=0)
        cascade = CascadeForest(config, n_classes=3, random_state=0)
        seen_widths = []

        with mock.patch.object(CascadeLayer, "fit", autospec=True,
                               side_effect=_synthetic_fit([0.1, 0.2, 0.3, 0.4], seen_widths=seen_widths)):
            cascade.fit(self.feats, self.labels)

        self.assertListEqual(seen_widths, [6, 6 + 9, 6 + 9, 6 + 9])

    def test_failure_keeps_completed_layers(self):
        config = GCForestConfig(max_iteration=5, early_stopping_rounds=5, verbose=0)
        cascade = CascadeForest(config, n_classes=3, random_state=0)

        with mock.patch.object(CascadeLayer, "fit", autospec=True,
                               side_effect=_synthetic_fit([0.6, 0.5], fail_at=2)):
            with self.assertRaises(TrainingError):
                cascade.fit(self.feats, self.labels)

        self.assertIs(cascade.state, GrowthState.ABORTED)
        self.assertEqual(len(cascade.layers), 2)
        self.assertEqual(cascade.best_n_layers, 1)

    def test_any_failure_aborts_growth(self):
        """
        - tests that errors other than TrainingError (here: fewer examples than folds) also leave the cascade aborted
        """
        config = GCForestConfig(rf_num=1, crf_num=1, cascade_forest_tree_num=5, k_cv=3, verbose=0)
        cascade = CascadeForest(config, n_classes=2, random_state=0)

        with self.assertRaises(ConfigurationError):
            cascade.fit(self.feats[:2], np.array([0, 1]))

        self.assertIs(cascade.state, GrowthState.ABORTED)
        self.assertEqual(len(cascade.layers), 0)

    def test_validation_set_drives_growth(self):
        config = GCForestConfig(rf_num=1, crf_num=1, cascade_forest_tree_num=5, max_iteration=3,
                                early_stopping_rounds=0, verbose=0)
        cascade = CascadeForest(config, n_classes=3, random_state=0)
        cascade.fit(self.feats[:45], self.labels[:45], val_feats=self.feats[45:], val_labels=self.labels[45:])

        expected_acc = np.mean(cascade.predict(self.feats[45:], n_layers=1) == self.labels[45:])
        self.assertAlmostEqual(cascade.accuracies[0], expected_acc)
        self.assertGreaterEqual(len(cascade.retained_layers), 1)
        np.testing.assert_allclose(cascade.predict_proba(self.feats).sum(axis=1), 1.0, atol=1e-6)

        with self.assertRaises(ConfigurationError):
            cascade.fit(self.feats, self.labels, val_feats=np.zeros((0, 6)), val_labels=np.zeros(0))
        with self.assertRaises(ShapeError):
            cascade.fit(self.feats, self.labels, val_feats=self.feats[:5, :4], val_labels=self.labels[:5])


if __name__ == "__main__":
    unittest.main()
