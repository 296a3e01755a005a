# This file is part of nxpresence.
#
# nxpresence is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# nxpresence is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with nxpresence.  If not, see <http://www.gnu.org/licenses/>.

"""
Allow running the module directly: python -m nxpresence
"""

from nxpresence.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
