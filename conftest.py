def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of single modules")
    config.addinivalue_line("markers", "functional: end-to-end runs of command-line scripts")
