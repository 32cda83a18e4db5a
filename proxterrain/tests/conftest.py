import os
import sys
import tempfile

# Never read or write the user's config while testing
os.environ.setdefault(
    "PROXTERRAIN_CONFIG",
    os.path.join(tempfile.mkdtemp(prefix="proxterrain-test-"), "proxterrain.ini")
)

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
