#!/usr/bin/env python
# encoding: utf-8

"""Extensions."""
