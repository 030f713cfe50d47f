"""Tests for k-means and hierarchical clustering."""

import numpy as np
import pytest

from unsupervised_learning.clustering import (
    LINKAGE_METHODS,
    agglomerative_coefficient,
    cluster_hierarchical,
    compare_dendrograms,
    compare_linkage_methods,
    cophenetic_correlation,
    cut_tree,
    get_clusterer,
    hcut,
    run_kmeans,
)
from unsupervised_learning.validation import (
    cluster_sizes,
    compute_cluster_stats,
    compute_silhouette,
    get_cluster_members,
    profile_clusters,
)


class TestKMeans:
    """Test k-means on USArrests."""

    def test_two_clusters(self, scaled_usarrests):
        """
        k=2 on scaled USArrests → 20/30 split.

        Tests: run_kmeans, KMeansResult sums of squares
        """
        result = run_kmeans(scaled_usarrests, 2)

        assert result.n_clusters == 2
        assert sorted(result.sizes.tolist()) == [20, 30]
        assert len(result.labels) == 50
        assert set(result.labels) == {0, 1}
        assert result.totss == pytest.approx(4 * 49)
        assert result.tot_withinss + result.betweenss == pytest.approx(result.totss)
        assert result.between_ratio == pytest.approx(0.475, abs=0.005)

    def test_four_clusters(self, scaled_usarrests):
        """
        k=4 with 25 starts → best partition explains about 71% of variance.

        Tests: run_kmeans, centers, withinss
        """
        result = run_kmeans(scaled_usarrests, 4, n_init=25)

        assert sorted(result.sizes.tolist()) == [8, 13, 13, 16]
        assert result.between_ratio == pytest.approx(0.712, abs=0.005)
        assert result.centers.shape == (4, 4)
        assert list(result.centers.columns) == list(scaled_usarrests.columns)
        assert result.withinss.sum() == pytest.approx(result.tot_withinss)

    def test_reproducible(self, scaled_usarrests):
        """Tests: same seed → same labels."""
        a = run_kmeans(scaled_usarrests, 3, random_state=7)
        b = run_kmeans(scaled_usarrests, 3, random_state=7)
        assert np.array_equal(a.labels, b.labels)

    def test_invalid_k(self, scaled_usarrests):
        with pytest.raises(ValueError):
            run_kmeans(scaled_usarrests, 0)
        with pytest.raises(ValueError):
            run_kmeans(scaled_usarrests, 51)


class TestHierarchical:
    """Test agglomerative clustering and tree cuts."""

    @pytest.mark.parametrize("method", LINKAGE_METHODS)
    def test_linkage_matrix(self, scaled_usarrests, method):
        """Tests: cluster_hierarchical builds an (n-1) x 4 linkage matrix."""
        Z = cluster_hierarchical(scaled_usarrests, method=method)
        assert Z.shape == (49, 4)
        assert Z[-1, 3] == 50

    def test_ward_requires_euclidean(self, scaled_usarrests):
        with pytest.raises(ValueError):
            cluster_hierarchical(scaled_usarrests, method="ward", metric="manhattan")

    def test_unknown_linkage(self, scaled_usarrests):
        with pytest.raises(ValueError):
            cluster_hierarchical(scaled_usarrests, method="ward.D3")

    def test_cut_tree(self, scaled_usarrests):
        """
        Ward tree cut at k=4 → four groups numbered by first appearance.

        Tests: cut_tree, cluster_sizes
        """
        Z = cluster_hierarchical(scaled_usarrests, method="ward")
        labels = cut_tree(Z, n_clusters=4)

        assert set(labels) == {1, 2, 3, 4}
        assert labels[0] == 1
        assert cluster_sizes(labels).sum() == 50

        first_seen = list(dict.fromkeys(labels.tolist()))
        assert first_seen == sorted(first_seen)

    def test_cut_tree_by_height(self, scaled_usarrests):
        """Tests: cutting above the root gives one cluster, at zero gives n."""
        Z = cluster_hierarchical(scaled_usarrests, method="complete")

        assert set(cut_tree(Z, height=Z[-1, 2] + 1)) == {1}
        assert len(set(cut_tree(Z, height=0))) == 50

    @pytest.mark.parametrize("k", [2, 3, 4, 5])
    def test_cut_tree_tied_heights(self, k):
        """
        Evenly spaced points under single linkage → every merge at height 1.

        Tests: cut_tree still returns k groups, hcut on the same points
        """
        points = np.arange(6, dtype=float).reshape(-1, 1)
        Z = cluster_hierarchical(points, method="single")
        assert np.allclose(Z[:, 2], 1.0)

        labels = cut_tree(Z, n_clusters=k)
        assert set(labels) == set(range(1, k + 1))
        assert labels[0] == 1

        assert set(hcut(points, k, method="single")) == set(range(k))

    def test_cut_tree_needs_target(self, scaled_usarrests):
        Z = cluster_hierarchical(scaled_usarrests)
        with pytest.raises(ValueError):
            cut_tree(Z)

    def test_hcut(self, scaled_usarrests):
        """Tests: hcut returns 0-indexed labels."""
        labels = hcut(scaled_usarrests, 3)
        assert set(labels) == {0, 1, 2}


class TestAgglomerativeCoefficient:
    """Test the clustering-structure coefficient."""

    def test_hand_built_tree(self):
        """
        Points 0,1 merge at height 1, point 2 joins at 4.

        m = [1/4, 1/4, 1] so AC = mean(0.75, 0.75, 0) = 0.5
        """
        Z = np.array([
            [0, 1, 1.0, 2],
            [2, 3, 4.0, 3],
        ])
        assert agglomerative_coefficient(Z) == pytest.approx(0.5)

    def test_usarrests_methods(self, scaled_usarrests):
        """
        Compare linkages on USArrests → ward strongest, single weakest.

        Tests: compare_linkage_methods, agglomerative_coefficient
        """
        coefs = compare_linkage_methods(scaled_usarrests)

        assert list(coefs.index) == ["average", "single", "complete", "ward"]
        assert all(0 <= c <= 1 for c in coefs)
        assert coefs["ward"] > coefs["complete"] > coefs["average"] > coefs["single"]
        assert coefs["complete"] == pytest.approx(0.853, abs=0.01)

    def test_tree_comparison(self, scaled_usarrests):
        """Tests: cophenetic_correlation, compare_dendrograms."""
        Z_complete = cluster_hierarchical(scaled_usarrests, method="complete")
        Z_ward = cluster_hierarchical(scaled_usarrests, method="ward")

        assert -1 <= cophenetic_correlation(Z_ward, scaled_usarrests) <= 1
        assert compare_dendrograms(Z_ward, Z_ward) == pytest.approx(1.0)
        assert 0 < compare_dendrograms(Z_complete, Z_ward) < 1


class TestValidation:
    """Test cluster summaries."""

    def test_cluster_summaries(self, usarrests, scaled_usarrests):
        """
        Cluster → silhouette, stats, members, profiles in original units.

        Tests: compute_silhouette, compute_cluster_stats,
               get_cluster_members, profile_clusters
        """
        labels = run_kmeans(scaled_usarrests, 4).labels
        ids = list(scaled_usarrests.index)

        assert 0 < compute_silhouette(scaled_usarrests, labels) <= 1

        stats = compute_cluster_stats(labels, ids)
        assert stats["n_clusters"] == 4
        assert stats["n_total"] == 50
        assert sum(stats["cluster_sizes"].values()) == 50

        members = get_cluster_members(labels, ids)
        assert sum(len(m) for m in members.values()) == 50
        assert all(m == sorted(m) for m in members.values())

        profile = profile_clusters(usarrests, labels)
        assert profile.shape == (4, 5)
        assert profile["size"].sum() == 50
        # Cluster means of raw Assault lie within the raw range
        assert profile["Assault"].between(45, 337).all()

    def test_silhouette_degenerate(self, scaled_usarrests):
        """Tests: a single cluster scores 0."""
        assert compute_silhouette(scaled_usarrests, np.zeros(50, dtype=int)) == 0.0

    def test_get_clusterer(self, scaled_usarrests):
        """Tests: get_clusterer for both methods, unknown method."""
        for method in ("kmeans", "hierarchical"):
            labels = get_clusterer(method)(scaled_usarrests, 3)
            assert len(set(labels)) == 3

        with pytest.raises(ValueError):
            get_clusterer("dbscan")
