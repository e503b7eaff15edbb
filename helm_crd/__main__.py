"""Run the HelmRelease controller with `python -m helm_crd`."""

from helm_crd.tool.controller import main

if __name__ == "__main__":
    main()
