import logging

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.cluster import DBSCAN
from sklearn.neighbors import BallTree
from sklearn.pipeline import Pipeline

from .config import EXTRA_CAPTURE_POLICIES
from .geo import EARTH_RADIUS_KM

logger = logging.getLogger(__name__)

MERGE_KEY = ["species", "filename"]


def _radius_dbscan(coords_deg, radius_km, n_jobs=None):
    """Connected components of the "within radius_km" graph (min_samples=1 DBSCAN)."""
    db = DBSCAN(
        eps=radius_km / EARTH_RADIUS_KM,
        min_samples=1,
        metric="haversine",
        algorithm="ball_tree",
        n_jobs=n_jobs,
    )
    return db.fit_predict(np.radians(np.asarray(coords_deg, dtype=float)))


def _cross_cluster_pairs(coords_rad, cluster_ids, radius_rad, block_size=256):
    """
    Cluster id pairs with at least one member pair within ``radius_rad``.

    Neighbours are looked up ``block_size`` rows at a time, so memory stays
    proportional to block_size * n rather than n * n.
    """
    tree = BallTree(coords_rad, metric="haversine")
    pairs = set()
    for start in range(0, len(coords_rad), block_size):
        neighbours = tree.query_radius(coords_rad[start:start + block_size], r=radius_rad)
        for offset, idx in enumerate(neighbours):
            own = cluster_ids[start + offset]
            others = cluster_ids[idx]
            for other in np.unique(others[others != own]):
                pairs.add(tuple(sorted((int(own), int(other)))))
    return pairs


# Step 1: Custom Transformer for Preprocessing
class CapturePreprocessor(BaseEstimator, TransformerMixin):
    """
    Drop captures that cannot take part in trip formation.

    Rows without a resolvable local day are removed and counted in
    ``skipped_captures_``; nothing is raised for them.
    """

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        required_columns = ["capture_index", "species", "filename", "latitude", "longitude", "instant", "day_key"]
        missing = [col for col in required_columns if col not in X.columns]
        if missing:
            raise ValueError(f"Input dataframe is missing required columns: {missing}. Was it built by captures_to_frame?")

        X = X.copy()
        undated = X["day_key"].isna() | X["instant"].isna()
        self.skipped_captures_ = int(undated.sum())
        if self.skipped_captures_:
            logger.warning("Skipping %s captures without a resolvable capture time", self.skipped_captures_)
        X = X[~undated]

        # Coordinates must be finite and in range to count as geotagged
        X["latitude"] = pd.to_numeric(X["latitude"], errors="coerce").astype(float)
        X["longitude"] = pd.to_numeric(X["longitude"], errors="coerce").astype(float)
        X["is_geotagged"] = (
            np.isfinite(X["latitude"])
            & np.isfinite(X["longitude"])
            & X["latitude"].between(-90, 90)
            & X["longitude"].between(-180, 180)
        )
        return X.reset_index(drop=True)


# Step 2: Bucket by local calendar day
class DayPartitioner(BaseEstimator, TransformerMixin):
    """Order captures by (DayKey, instant, input position) so every later step sees days in time order."""

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        X = X.sort_values(["day_key", "instant", "capture_index"], kind="mergesort")
        return X.reset_index(drop=True)


# Step 3: Custom Transformer for per-day Spatial DBSCAN Clustering
class SpatialDBSCAN(BaseEstimator, TransformerMixin):
    """
    Label every geotagged capture with a ``geo_cluster_id``.

    Within one day two captures share a cluster iff a chain of captures
    links them with every hop at most ``cluster_radius_km`` apart. DBSCAN
    with ``min_samples=1`` yields exactly those connected components; the
    ball tree only prunes candidate pairs and never changes the partition.
    Ids are global across days and follow time order, non-geotagged rows
    get -1.
    """

    def __init__(self, cluster_radius_km=30.0, n_jobs=None):
        self.cluster_radius_km = cluster_radius_km
        self.n_jobs = n_jobs

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        X = X.copy()
        X["geo_cluster_id"] = -1
        next_id = 0

        for day_key, sub in X[X["is_geotagged"]].groupby("day_key", sort=True):
            labels = _radius_dbscan(
                sub[["latitude", "longitude"]].to_numpy(),
                self.cluster_radius_km,
                n_jobs=self.n_jobs,
            )
            X.loc[sub.index, "geo_cluster_id"] = labels + next_id
            n_clusters = int(labels.max()) + 1
            logger.debug("Day %s: %s geotagged captures -> %s clusters", day_key, len(sub), n_clusters)
            next_id += n_clusters

        X["geo_cluster_id"] = X["geo_cluster_id"].astype(int)
        return X


class ValidateGeoClusters(BaseEstimator, TransformerMixin):
    """
    Validate that every geo-cluster is a connected component at the radius.

    Each cluster must be internally connected, and no capture of one cluster
    may lie within the radius of a capture in another cluster of the same
    day. Raises ValueError if either check fails.
    """

    def __init__(self, cluster_radius_km=30.0, tolerance=1e-9, block_size=256):
        self.cluster_radius_km = cluster_radius_km
        self.tolerance = tolerance
        self.block_size = block_size

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        if "geo_cluster_id" not in X.columns:
            raise ValueError("Missing geo_cluster_id; run SpatialDBSCAN before validation.")

        disconnected = []
        unseparated = []
        geo = X[X["is_geotagged"]]

        for _cluster_id, sub in geo.groupby("geo_cluster_id"):
            if len(sub) <= 1:
                continue
            labels = _radius_dbscan(sub[["latitude", "longitude"]].to_numpy(), self.cluster_radius_km)
            if labels.max() > 0:
                disconnected.append((_cluster_id, int(labels.max() + 1), len(sub)))

        limit = self.cluster_radius_km * (1 - self.tolerance)
        for day_key, sub in geo.groupby("day_key"):
            cluster_ids = sub["geo_cluster_id"].to_numpy()
            if np.unique(cluster_ids).size <= 1:
                continue
            coords = np.radians(sub[["latitude", "longitude"]].to_numpy(dtype=float))
            pairs = _cross_cluster_pairs(coords, cluster_ids, limit / EARTH_RADIUS_KM, self.block_size)
            if pairs:
                unseparated.append((day_key, sorted(pairs)))

        if disconnected or unseparated:
            parts = []
            if disconnected:
                sample = ", ".join(f"id={cid} comps={comps} size={n}" for cid, comps, n in disconnected[:10])
                parts.append(
                    f"{len(disconnected)} clusters spatially disconnected at radius={self.cluster_radius_km}km (examples: {sample})"
                )
            if unseparated:
                sample = ", ".join(f"day={day} pairs={pairs[:3]}" for day, pairs in unseparated[:10])
                parts.append(
                    f"{len(unseparated)} days with clusters closer than radius={self.cluster_radius_km}km (examples: {sample})"
                )
            raise ValueError("; ".join(parts))
        return X


# Step 4: Attach non-geotagged captures to their day's clusters
class CaptureMerger(BaseEstimator, TransformerMixin):
    """
    Produce one row per (trip cluster, capture).

    Non-geotagged captures of a day are attached to that day's geo-clusters
    according to ``policy``:

    - ``"all"``: every cluster of the day receives every extra capture, so
      one photo can appear in several trips.
    - ``"largest"``: each extra goes only to the day's largest cluster
      (ties go to the earliest-discovered one).

    Extras already present in a cluster under the same (species, filename)
    are skipped. Extras from days without any geo-cluster are dropped and
    counted in ``unattached_extras_``.
    """

    def __init__(self, policy="all"):
        self.policy = policy

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        if self.policy not in EXTRA_CAPTURE_POLICIES:
            raise ValueError(f"Unknown extra capture policy {self.policy!r}; expected one of {EXTRA_CAPTURE_POLICIES}")

        geo = X[X["is_geotagged"]].copy()
        geo["trip_cluster_id"] = geo["geo_cluster_id"]
        geo["is_extra"] = False
        extras = X[~X["is_geotagged"]]

        pieces = [geo]
        self.unattached_extras_ = 0
        for day_key, day_extras in extras.groupby("day_key", sort=True):
            day_geo = geo[geo["day_key"] == day_key]
            if day_geo.empty:
                self.unattached_extras_ += len(day_extras)
                continue
            day_extras = day_extras.drop_duplicates(subset=MERGE_KEY, keep="first")
            for cluster_id in self._target_clusters(day_geo):
                present = set(
                    map(tuple, day_geo.loc[day_geo["geo_cluster_id"] == cluster_id, MERGE_KEY].to_numpy())
                )
                keys = map(tuple, day_extras[MERGE_KEY].to_numpy())
                keep = np.array([key not in present for key in keys], dtype=bool)
                attached = day_extras[keep].copy()
                attached["trip_cluster_id"] = cluster_id
                attached["is_extra"] = True
                pieces.append(attached)
                logger.debug("Day %s: attached %s extra captures to cluster %s", day_key, len(attached), cluster_id)

        if self.unattached_extras_:
            logger.warning(
                "%s non-geotagged captures fall on days without geotagged captures and join no trip",
                self.unattached_extras_,
            )

        merged = pd.concat(pieces, ignore_index=True)
        merged["trip_cluster_id"] = merged["trip_cluster_id"].astype(int)
        merged["is_extra"] = merged["is_extra"].astype(bool)
        merged = merged.sort_values(["trip_cluster_id", "instant", "capture_index"], kind="mergesort")
        return merged.reset_index(drop=True)

    def _target_clusters(self, day_geo):
        sizes = day_geo.groupby("geo_cluster_id").size()
        if self.policy == "all":
            return sizes.index.tolist()
        # idxmax returns the first (lowest id) cluster among equal sizes
        return [int(sizes.idxmax())]


# Create the pipeline
def create_pipeline(cluster_radius_km=30.0, extra_capture_policy="all", validate=True, n_jobs=None):
    steps = [
        ("preprocessor", CapturePreprocessor()),
        ("day_partitioner", DayPartitioner()),
        ("spatial_dbscan", SpatialDBSCAN(cluster_radius_km=cluster_radius_km, n_jobs=n_jobs)),
    ]
    if validate:
        steps.append(("validate_clusters", ValidateGeoClusters(cluster_radius_km=cluster_radius_km)))
    steps.append(("capture_merger", CaptureMerger(policy=extra_capture_policy)))
    return Pipeline(steps)
