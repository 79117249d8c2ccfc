import os
import shutil
import tempfile
import unittest
from unittest import mock
import numpy as np

from gcforest_engine import common_utils
from gcforest_engine.exceptions import ConfigurationError, ShapeError, TrainingError
from gcforest_engine.forest_unit import ForestKind


class TestFolds(unittest.TestCase):
    def test_stratified_folds(self):
        labels = np.array([0] * 12 + [1] * 9 + [2] * 6)
        fold_ids = common_utils.assign_folds(labels, k_cv=3, random_state=0)

        self.assertTupleEqual(fold_ids.shape, labels.shape)
        for idx_fold in range(3):
            np.testing.assert_array_equal(np.bincount(labels[fold_ids == idx_fold]), [4, 3, 2])

    def test_random_folds_for_rare_classes(self):
        # class 2 has fewer examples than there are folds, so folds can not be stratified
        labels = np.array([0] * 10 + [1] * 10 + [2] * 2)
        fold_ids = common_utils.assign_folds(labels, k_cv=4, random_state=0)

        self.assertSetEqual(set(fold_ids), {0, 1, 2, 3})

    def test_degenerate_split(self):
        # whichever fold holds the only example of class 1, the rest only holds class 0
        labels = np.array([0] * 10 + [1])

        with self.assertRaises(TrainingError):
            common_utils.assign_folds(labels, k_cv=3, random_state=0)

    def test_degenerate_split_is_reshuffled(self):
        """
        - tests that a degenerate split is drawn again once and that the second (valid) split is used
        """
        labels = np.array([0, 0, 0, 1, 1, 1])
        # leaving out fold 0 leaves only class 1 for training
        degenerate_ids = np.array([0, 0, 0, 1, 1, 2])
        valid_ids = np.array([0, 1, 2, 0, 1, 2])

        with mock.patch.object(common_utils, "_kfold_ids", side_effect=[degenerate_ids, valid_ids]) as kfold_ids:
            fold_ids = common_utils.assign_folds(labels, k_cv=3, random_state=0)

        np.testing.assert_array_equal(fold_ids, valid_ids)
        self.assertEqual(kfold_ids.call_count, 2)

    def test_too_few_examples(self):
        with self.assertRaises(ConfigurationError):
            common_utils.assign_folds(np.array([0, 1]), k_cv=3)

    def test_fixed_seed_is_deterministic(self):
        labels = np.array([0, 1] * 15)

        np.testing.assert_array_equal(common_utils.assign_folds(labels, k_cv=5, random_state=11),
                                      common_utils.assign_folds(labels, k_cv=5, random_state=11))


class TestOutOfFold(unittest.TestCase):
    def setUp(self):
        rng = np.random.RandomState(0)
        self.feats = rng.random_sample((45, 4))
        self.labels = np.array([0, 1, 2] * 15)
        self.feats[:, 0] += self.labels
        self.units_params = [dict(kind=ForestKind.RF, n_classes=3, n_estimators=10),
                             dict(kind=ForestKind.CRF, n_classes=3, n_estimators=10, feature_subset_strategy=1)]

    def test_out_of_fold_distributions(self):
        fold_ids = common_utils.assign_folds(self.labels, k_cv=3, random_state=0)
        units, class_distribs = common_utils.fit_out_of_fold(self.units_params, self.feats, self.labels, fold_ids,
                                                             n_classes=3, random_state=0)

        self.assertEqual(len(units), 2)
        self.assertIs(units[0].kind, ForestKind.RF)
        self.assertIs(units[1].kind, ForestKind.CRF)
        for class_distrib in class_distribs:
            self.assertTupleEqual(class_distrib.shape, (45, 3))
            np.testing.assert_allclose(class_distrib.sum(axis=1), 1.0, atol=1e-6)

    def test_excluded_rows(self):
        fold_ids = common_utils.assign_folds(self.labels, k_cv=3, random_state=0)
        fold_ids[:3] = -1

        _, class_distribs = common_utils.fit_out_of_fold(self.units_params, self.feats, self.labels, fold_ids,
                                                         n_classes=3, random_state=0)

        np.testing.assert_array_equal(class_distribs[0][:3], np.zeros((3, 3)))
        np.testing.assert_allclose(class_distribs[0][3:].sum(axis=1), 1.0, atol=1e-6)

    def test_parallel_matches_sequential(self):
        fold_ids = common_utils.assign_folds(self.labels, k_cv=3, random_state=0)
        _, distribs_seq = common_utils.fit_out_of_fold(self.units_params, self.feats, self.labels, fold_ids,
                                                       n_classes=3, n_jobs=1, random_state=5)
        _, distribs_par = common_utils.fit_out_of_fold(self.units_params, self.feats, self.labels, fold_ids,
                                                       n_classes=3, n_jobs=2, random_state=5)

        for distrib_seq, distrib_par in zip(distribs_seq, distribs_par):
            np.testing.assert_array_equal(distrib_seq, distrib_par)


class TestHelpers(unittest.TestCase):
    def test_accuracy(self):
        proba_preds = np.array([[0.9, 0.1], [0.2, 0.8], [0.6, 0.4], [0.3, 0.7]])

        self.assertAlmostEqual(common_utils.accuracy(proba_preds, np.array([0, 1, 1, 1])), 0.75)
        with self.assertRaises(ConfigurationError):
            common_utils.accuracy(np.zeros((0, 2)), np.zeros(0))

    def test_average_proba(self):
        feats = np.array([[1, 0, 0.7, 0.3],
                          [0.01, 0.99, 0.22, 0.78]])

        np.testing.assert_array_almost_equal(common_utils.average_proba(feats, 2), [[0.85, 0.15], [0.115, 0.885]])
        with self.assertRaises(ShapeError):
            common_utils.average_proba(feats, 3)

    def test_save_load(self):
        cache_dir = tempfile.mkdtemp()
        try:
            path = os.path.join(cache_dir, "data.joblib")
            common_utils.save_data({"a": np.arange(3)}, path)
            np.testing.assert_array_equal(common_utils.load_data(path)["a"], np.arange(3))
        finally:
            shutil.rmtree(cache_dir, ignore_errors=True)


if __name__ == "__main__":
    unittest.main()
