"""Problem Expert: knowledge base for PDDL task planning"""

from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.1.0"

# Load PROBLEM_EXPERT_* settings from a .env file in the project root
project_root = Path(__file__).parent.parent.parent
dotenv_path = project_root / ".env"

if dotenv_path.exists():
    load_dotenv(dotenv_path)
