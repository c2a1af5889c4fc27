"""LArReco command line interface.

Usage Examples
--------------
Run with a configuration file::

    larreco -c config/full.yaml

Run with command-line flags only::

    larreco -i PandoraSettings_Master.xml -d drift_volumes.yaml -e events.npz -r AllHitsNu

Override any configuration parameter::

    larreco -c config/full.yaml --set reco.num_slice_workers=4
"""
