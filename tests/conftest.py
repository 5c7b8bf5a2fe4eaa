from tests.fixtures.auth import *  # noqa: F401,F403
from tests.fixtures.core import *  # noqa: F401,F403
from tests.fixtures.oidc import *  # noqa: F401,F403
from tests.fixtures.services import *  # noqa: F401,F403
