# Ensure tests import the relay package from this checkout first, whether or
# not it has been installed, so `import edge_relay.*` behaves consistently.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
