"""Skill packages: remote fetch, install and the local registry"""
