"""Web layer: page routes and the development live-reload socket."""
