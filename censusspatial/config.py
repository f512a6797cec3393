# censusspatial/config.py
# Shared constants for the census unemployment analysis

############################################
# ACS 5-year table B23025 (Employment Status for the Population 16+)
ACS_VARIABLES = {
    "B23025_003E": "LABOR_FORCE",   # In labor force: civilian labor force
    "B23025_004E": "EMPLOYED",      # Civilian labor force: employed
    "B23025_005E": "UNEMPLOYED",    # Civilian labor force: unemployed
}
############################################
# Field names
ID_FIELD = "GEOID"                  # 11-digit tract code: state(2) + county(3) + tract(6)
ID_WIDTH = 11
NUMERATOR_FIELD = "UNEMPLOYED"
DENOMINATOR_FIELD = "LABOR_FORCE"
VALUE_FIELD = "PCT_UNEMPLOYED"

# Results table columns
LOCAL_I_FIELD = "LOCAL_I"
LOCAL_Z_FIELD = "LOCAL_Z"
LOCAL_P_FIELD = "LOCAL_P"
SPATIAL_LAG_FIELD = "SPATIAL_LAG"
LABEL_FIELD = "LISA_LABEL"
QUADRANT_FIELD = "LISA_QUADRANT"
N_NEIGHBORS_FIELD = "N_NEIGHBORS"
############################################
# Significance thresholds (strictly less than)
STRONG_SIGNIFICANCE = 0.001
SIGNIFICANCE = 0.05

CLUSTER_STRONG = "Cluster (strong)"
CLUSTER = "Cluster"
OUTLIER_STRONG = "Outlier (strong)"
OUTLIER = "Outlier"
NOT_SIGNIFICANT = "Not Significant"

LABELS = [CLUSTER_STRONG, CLUSTER, OUTLIER_STRONG, OUTLIER, NOT_SIGNIFICANT]

LABEL_COLORS = {
    CLUSTER_STRONG: "#b2182b",
    CLUSTER: "#ef8a62",
    OUTLIER_STRONG: "#2166ac",
    OUTLIER: "#67a9cf",
    NOT_SIGNIFICANT: "#e0e0e0",
}

QUADRANT_COLORS = {
    "High-High": "#d7191c",
    "Low-Low": "#2c7bb6",
    "High-Low": "#fdae61",
    "Low-High": "#abd9e9",
    "Neutral": "#e0e0e0",
}
############################################
# Projection used for contiguity (CONUS Albers, metres) and for web maps
ANALYSIS_EPSG = 5070
WEB_EPSG = 4326

VALUE_CMAP = "YlOrRd"
