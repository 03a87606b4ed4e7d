"""DGCP (Dirección General de Contrataciones Públicas) API constants."""

BASE_URL = "https://api.dgcp.gob.do/api"

# Endpoints
DATE_WINDOW_PATH = "/date/{date_from}/{date_to}/{page}"
RELEASE_PATH = "/release/{ocid}"
INSTITUTION_PATH = "/uc/{institution}/{page}"

DEFAULT_PAGE_LIMIT = 100
DEFAULT_DETAIL_CAP = 20
# Range used by remote searches and "current releases" when no dates are given
DEFAULT_RANGE_DAYS = 30

# Locations of the release array in a listing response, in lookup order
RELEASE_ARRAY_PATHS = ("data", "data.releases", "releases")

CONNECTIVITY_MESSAGE = (
    "Error de conexión: No se puede conectar con el servidor de la DGCP. "
    "Verificar conexión a internet."
)
