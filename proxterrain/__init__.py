from proxterrain.version import __version__
