"""Run the appset-controller command line tool."""

from appset_controller.tool.appset_controller import main

if __name__ == "__main__":
    main()
