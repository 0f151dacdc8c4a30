"""nodestep — provision Node.js on demand and run package managers as build steps."""

__version__ = "0.1.0"
