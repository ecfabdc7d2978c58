import os
import sys

# Add the parent directory to the path so we can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Set environment variable to avoid real database connections during tests
os.environ["ENABLE_DATABASE"] = "false"
