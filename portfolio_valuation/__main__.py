"""Allow ``python -m portfolio_valuation``."""
from .cli import main

if __name__ == "__main__":
    main()
