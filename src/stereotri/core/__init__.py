"""
Camera geometry building blocks: homogeneous transforms, radial distortion,
the linear stereo system and image sampling.
"""
