"""Corpus reshaping: flatten category folders into one poster folder."""
