"""Default tuning values for the walkshed pipeline.

The seed and boundary numbers were picked empirically; treat them as knobs.
"""

SNAP_DISTANCE_M = 250.0
QUERY_PADDING_M = 80.0
GRAPH_CACHE_COORD_PRECISION = 4
POINT_KEY_DECIMALS = 7
LOCAL_POINT_KEY_DECIMALS = 2
MIN_EFFECTIVE_WALK_DISTANCE_M = 1.0
CONCAVE_HULL_RATIO = 0.35
START_NODE_CANDIDATE_LIMIT = 24
MIN_BOUNDARY_POINTS_FOR_RELIABLE_POLYGON = 8
MAX_SEED_DISTANCE_DELTA_M = 40.0

METERS_PER_LAT_DEGREE = 111_320.0
EARTH_RADIUS_M = 6_371_000.0

TRANSIENT_RETRY_AFTER_S = 5 * 60
NO_DATA_RETRY_AFTER_S = 24 * 60 * 60
