import os
import sys

import matplotlib

matplotlib.use("Agg")

# Make the package importable when the tests run from a source checkout
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
