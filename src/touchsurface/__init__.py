"""
Touch Surface
==============

Turns a table top into a touch panel using a colour + depth camera.
Printed shapes are recognised as controls during calibration; a fingertip
touching one of them is then reported as a contact.

Modules:
    - capture: Sensor frame acquisition (OpenNI device or still image)
    - mapping: Colour-to-depth correspondence and depth sampling
    - detection: Shape candidates and fingertip tracking
    - recognition: HOG + SVM shape classification
    - interaction: Calibration state machine and contact detection
    - training: Shape classifier training
    - data: Shape sample collection
    - utils: Configuration, logging, performance, visualization
"""

__version__ = "1.0.0"
__author__ = "Touch Surface Team"
