"""Allow `python -m mockgen`."""
from mockgen.cli.main import main

main()
