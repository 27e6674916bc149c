from m86workbench.main_window import run_app


run_app()
