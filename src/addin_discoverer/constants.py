"""Well-known names, URLs and tunables."""

from addin_discoverer.models import CakeVersion
from addin_discoverer.versioning import SemVersion

CAKE_CONTRIB_REPO_OWNER = "cake-contrib"
CAKE_CONTRIB_REPO_NAME = "Home"
CAKE_RECIPE_PACKAGE_NAME = "Cake.Recipe"

PACKAGE_PREFIX = "Cake."
MODULE_SUFFIX = ".Module"
DEPRECATED_MARKER = "[DEPRECATED]"

NEW_CAKE_CONTRIB_ICON_URL = (
    "https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png/cake-contrib-medium.png"
)
OLD_CAKE_CONTRIB_ICON_URL = (
    "https://cdn.rawgit.com/cake-contrib/graphics/"
    "a5cf0f881c390650144b2243ae551d5b9f836196/png/cake-contrib-medium.png"
)

_FANCY_ICON_BASE = "https://cdn.jsdelivr.net/gh/cake-contrib/graphics/png"
CAKE_CONTRIB_ADDIN_FANCY_ICON_URL = f"{_FANCY_ICON_BASE}/addin/cake-contrib-addin-medium.png"
CAKE_CONTRIB_MODULE_FANCY_ICON_URL = f"{_FANCY_ICON_BASE}/module/cake-contrib-module-medium.png"
CAKE_CONTRIB_RECIPE_FANCY_ICON_URL = f"{_FANCY_ICON_BASE}/recipe/cake-contrib-recipe-medium.png"
CAKE_CONTRIB_FROSTING_RECIPE_FANCY_ICON_URL = (
    f"{_FANCY_ICON_BASE}/frosting-recipe/cake-contrib-frosting-recipe-medium.png"
)
CAKE_CONTRIB_COMMUNITY_FANCY_ICON_URL = (
    f"{_FANCY_ICON_BASE}/community/cake-contrib-community-medium.png"
)

NUGET_SEARCH_URL = "https://azuresearch-usnc.nuget.org/query"
NUGET_REGISTRATION_URL = "https://api.nuget.org/v3/registration5-gz-semver2"
NUGET_FLAT_CONTAINER_URL = "https://api.nuget.org/v3-flatcontainer"
NUGET_SYMBOLS_URL = "https://www.nuget.org/api/v2/symbolpackage"
NUGET_GALLERY_URL = "https://www.nuget.org/packages"
NUGET_SEARCH_PAGE_SIZE = 1000

GITHUB_API_URL = "https://api.github.com"

MAX_NUGET_CONCURRENCY = 25
MAX_GITHUB_CONCURRENCY = 10
MAX_RATE_LIMIT_ATTEMPTS = 3
DEFAULT_RETRY_AFTER_SECONDS = 60
RECIPE_CHECK_DELAY_SECONDS = 2.5

# Marks a portable PDB custom debug record holding SourceLink json.
SOURCE_LINK_GUID = "CC110556-A091-4D38-9FEC-25AB9A351A6A"

CAKE_CORE_NAME = "Cake.Core"
CAKE_COMMON_NAME = "Cake.Common"
CAKE_ANNOTATIONS_NAMESPACE = "Cake.Core.Annotations"
CAKE_METHOD_ALIAS_ATTRIBUTE = "CakeMethodAliasAttribute"
CAKE_PROPERTY_ALIAS_ATTRIBUTE = "CakePropertyAliasAttribute"
CAKE_ALIAS_CATEGORY_ATTRIBUTE = "CakeAliasCategoryAttribute"
CAKE_MODULE_ATTRIBUTE = "CakeModuleAttribute"

CAKE_VERSIONS = [
    CakeVersion(
        version=SemVersion(0, 0, 0),
        required_frameworks=[],
        optional_frameworks=[],
    ),
    CakeVersion(
        version=SemVersion(1, 0, 0),
        required_frameworks=["netstandard2.0"],
        optional_frameworks=["net46", "net461", "net5.0"],
    ),
    CakeVersion(
        version=SemVersion(2, 0, 0),
        required_frameworks=["net6.0", "net5.0", "netcoreapp3.1"],
        optional_frameworks=[],
    ),
    CakeVersion(
        version=SemVersion(3, 0, 0),
        required_frameworks=["net6.0", "net7.0"],
        optional_frameworks=[],
    ),
]
